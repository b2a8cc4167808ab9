from .reporting import labelled_results, results_frame, summarize_results

__all__ = ["labelled_results", "results_frame", "summarize_results"]
