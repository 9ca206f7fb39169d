from catirt.results.fit_result import EstimationResult, ModelSelectionResult

__all__ = ["EstimationResult", "ModelSelectionResult"]
