"""
Model Loader — loads a user-uploaded scikit-learn .pkl model and wraps it as
a `predict(x) -> float` callable for the robustness test engine.

Only whitelisted scikit-learn estimator classes are accepted.
"""

import hashlib
import pickle
from typing import Any, Callable, Dict, List, Tuple

import numpy as np

# ── Allowed model types (whitelist only) ──────────────────────────────────────
ALLOWED_CLASSES = {
    "LogisticRegression", "RandomForestClassifier", "RandomForestRegressor",
    "GradientBoostingClassifier", "GradientBoostingRegressor",
    "SVC", "SVR", "LinearSVC", "LinearSVR",
    "DecisionTreeClassifier", "DecisionTreeRegressor",
    "MLPClassifier", "MLPRegressor",
    "SGDClassifier", "SGDRegressor",
    "KNeighborsClassifier", "KNeighborsRegressor",
    "ExtraTreesClassifier", "ExtraTreesRegressor",
    "AdaBoostClassifier", "AdaBoostRegressor",
    "Ridge", "Lasso", "ElasticNet", "LinearRegression",
    "GaussianNB", "BernoulliNB",
    "Pipeline",
}

MAX_MODEL_SIZE = 50 * 1024 * 1024  # 50 MB


class ModelLoader:

    def load_and_validate(self, model_bytes: bytes, filename: str) -> Tuple[Any, Dict[str, Any]]:
        """
        Unpickle and check the estimator against the whitelist.
        Returns (model, metadata). Raises ValueError on any security or format issue.
        """
        if len(model_bytes) > MAX_MODEL_SIZE:
            raise ValueError(f"Model file too large (max {MAX_MODEL_SIZE // 1024 // 1024}MB)")

        sha256 = hashlib.sha256(model_bytes).hexdigest()

        try:
            model = pickle.loads(model_bytes)  # noqa: S301
        except Exception as e:
            raise ValueError(f"Cannot unpickle model: {e}")

        class_name = type(model).__name__
        module_name = type(model).__module__
        if not module_name.startswith("sklearn"):
            raise ValueError(
                f"Only scikit-learn models are supported. Got: {module_name}.{class_name}"
            )
        if class_name not in ALLOWED_CLASSES:
            raise ValueError(
                f"Model type '{class_name}' is not in the supported list. "
                f"Supported: {sorted(ALLOWED_CLASSES)}"
            )
        if not hasattr(model, "predict"):
            raise ValueError(f"Model type '{class_name}' has no predict method")

        metadata = {
            "model_type": class_name,
            "module": module_name,
            "filename": filename,
            "file_size_kb": round(len(model_bytes) / 1024, 1),
            "sha256": sha256,
            "n_features_in": int(getattr(model, "n_features_in_", 0)) or None,
            "score_source": "predict_proba" if hasattr(model, "predict_proba") else "predict",
        }
        return model, metadata

    @staticmethod
    def make_predict_fn(model: Any) -> Callable[[List[float]], float]:
        """Probability of the positive class, or the raw prediction clipped to [0, 1]."""
        if hasattr(model, "predict_proba"):
            def predict(x: List[float]) -> float:
                proba = model.predict_proba(np.asarray([x], dtype=float))[0]
                return float(proba[-1])
        else:
            def predict(x: List[float]) -> float:
                value = float(model.predict(np.asarray([x], dtype=float))[0])
                return float(np.clip(value, 0.0, 1.0))
        return predict
