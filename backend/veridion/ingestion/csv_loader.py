"""
CSV Ingestion — parses an evaluation dataset for robustness testing.
Auto-detects the label column and numeric feature columns, and derives
per-feature ranges for edge-case generation. Values are not normalised:
the model under test sees them exactly as it was trained on.
"""
import io
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

MAX_ROWS = 50_000
MIN_ROWS = 5
MAX_FILE_SIZE_MB = 10

LABEL_NAMES = {
    "label", "labels", "target", "targets", "class", "classes",
    "y", "output", "result", "outcome", "ground_truth", "fraud", "default",
}


class CSVIngestionEngine:

    def _detect_label_column(self, df: pd.DataFrame) -> Optional[str]:
        """Name match first, then a binary numeric column."""
        for col in df.columns:
            if str(col).lower().strip() in LABEL_NAMES:
                return col

        for col in df.columns:
            if pd.api.types.is_numeric_dtype(df[col]):
                unique_vals = df[col].dropna().unique()
                if len(unique_vals) == 2 and set(unique_vals).issubset({0, 1}):
                    return col
        return None

    def _detect_feature_columns(self, df: pd.DataFrame, label_col: Optional[str]) -> List[str]:
        exclude = {label_col} if label_col else set()
        for col in df.columns:
            col_lower = str(col).lower()
            if any(x in col_lower for x in ("id", "uuid", "index", "timestamp", "date")):
                if df[col].nunique() > len(df) * 0.9:  # near-unique = ID
                    exclude.add(col)
        return [
            col for col in df.columns
            if col not in exclude and pd.api.types.is_numeric_dtype(df[col])
        ]

    @staticmethod
    def _encode_labels(series: pd.Series) -> np.ndarray:
        if pd.api.types.is_numeric_dtype(series):
            vals = series.fillna(0).to_numpy(dtype=float)
            unique = np.unique(vals)
            if len(unique) == 2:
                return (vals == unique[1]).astype(float)
            return np.clip(vals, 0.0, 1.0)
        # String labels: second category (sorted) is the positive class
        codes, uniques = pd.factorize(series.fillna("unknown").astype(str), sort=True)
        return (codes == min(1, len(uniques) - 1)).astype(float)

    def ingest(self, csv_bytes: bytes, filename: str = "upload.csv") -> Dict[str, Any]:
        """
        Returns
            {
                "features": np.ndarray,            # raw numeric feature matrix
                "labels": np.ndarray,              # 0/1 (zeros when no label column)
                "feature_names": List[str],
                "label_column": str | None,
                "feature_ranges": List[{"min", "max"}],
                "n_rows": int,
                "warnings": List[str],
            }
        """
        if len(csv_bytes) > MAX_FILE_SIZE_MB * 1024 * 1024:
            raise ValueError(f"CSV file too large (max {MAX_FILE_SIZE_MB}MB)")

        warnings = []
        try:
            df = pd.read_csv(io.BytesIO(csv_bytes))
        except Exception as e:
            raise ValueError(f"Failed to parse CSV: {e}")

        if len(df) > MAX_ROWS:
            df = df.head(MAX_ROWS)
            warnings.append(f"Dataset truncated to {MAX_ROWS} rows (limit).")
        if len(df) < MIN_ROWS:
            raise ValueError(f"Dataset too small (minimum {MIN_ROWS} rows required).")

        label_col = self._detect_label_column(df)
        feature_cols = self._detect_feature_columns(df, label_col)
        if not feature_cols:
            raise ValueError("No numeric feature columns found in the CSV.")

        feature_df = df[feature_cols]
        if feature_df.isna().any().any():
            warnings.append("Missing feature values filled with column medians.")
            feature_df = feature_df.fillna(feature_df.median())
        features = feature_df.to_numpy(dtype=np.float64)

        if label_col is None:
            warnings.append("No label column detected; labels default to 0.")
            labels = np.zeros(len(df))
        else:
            labels = self._encode_labels(df[label_col])

        return {
            "filename": filename,
            "features": features,
            "labels": labels,
            "feature_names": [str(c) for c in feature_cols],
            "label_column": label_col,
            "feature_ranges": [
                {"min": float(lo), "max": float(hi)}
                for lo, hi in zip(features.min(axis=0), features.max(axis=0))
            ],
            "n_rows": len(features),
            "warnings": warnings,
        }
