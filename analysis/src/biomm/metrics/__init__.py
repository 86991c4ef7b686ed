"""Performance metrics for BioMM predictions."""

from biomm.metrics.performance import auroc, compute_metrics, nagelkerke_r2

__all__ = ["auroc", "compute_metrics", "nagelkerke_r2"]
