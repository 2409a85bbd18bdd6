"""Matrix and label I/O for CellType-RefMatch.

All numeric inputs are normalised to a features x samples ``DataFrame``
with string feature and sample identifiers. AnnData objects follow the
usual cells x features orientation and are transposed on entry.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import sparse

from ..errors import DataError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def is_anndata(data: Any) -> bool:
    return hasattr(data, "var_names") and hasattr(data, "obs_names") and hasattr(data, "X")


def as_feature_frame(
    data: Any,
    feature_names: Optional[Sequence[str]] = None,
    sample_names: Optional[Sequence[str]] = None,
    layer: Optional[str] = None,
) -> pd.DataFrame:
    """Coerce a numeric matrix into a float features x samples DataFrame.

    Parameters
    ----------
    data : DataFrame, AnnData, ndarray or sparse matrix
        Input matrix. DataFrames and arrays are taken as features x samples,
        AnnData as cells x features.
    feature_names : Sequence[str], optional
        Row identifiers for array input.
    sample_names : Sequence[str], optional
        Column identifiers for array input.
    layer : str, optional
        AnnData layer to read instead of ``X``.

    Returns
    -------
    pd.DataFrame
        Float matrix indexed by feature, columns by sample.

    Raises
    ------
    DataError
        If feature identifiers are duplicated or shapes do not match.
    """
    if isinstance(data, pd.DataFrame):
        frame = data
    elif is_anndata(data):
        if layer is not None and layer in data.layers:
            matrix = data.layers[layer]
        else:
            if layer is not None:
                logger.warning("Layer '%s' not found in AnnData, using X", layer)
            matrix = data.X
        matrix = matrix.toarray() if sparse.issparse(matrix) else np.asarray(matrix)
        frame = pd.DataFrame(
            matrix.T,
            index=data.var_names.astype(str),
            columns=data.obs_names.astype(str),
        )
    else:
        matrix = data.toarray() if sparse.issparse(data) else np.asarray(data)
        if matrix.ndim != 2:
            raise DataError(f"Expected a 2-D matrix, got shape {matrix.shape}")
        if feature_names is None:
            feature_names = [f"feature_{i}" for i in range(matrix.shape[0])]
        if sample_names is None:
            sample_names = [f"sample_{i}" for i in range(matrix.shape[1])]
        if len(feature_names) != matrix.shape[0] or len(sample_names) != matrix.shape[1]:
            raise DataError(
                f"Matrix shape {matrix.shape} does not match "
                f"{len(feature_names)} feature names and {len(sample_names)} sample names"
            )
        frame = pd.DataFrame(matrix, index=list(feature_names), columns=list(sample_names))

    frame = frame.copy()
    frame.index = frame.index.astype(str)
    frame.columns = frame.columns.astype(str)
    if frame.index.has_duplicates:
        dupes = frame.index[frame.index.duplicated()].unique().tolist()
        raise DataError(f"Duplicated feature identifiers: {dupes[:10]}")
    try:
        return frame.astype(float)
    except (TypeError, ValueError) as e:
        raise DataError(f"Matrix contains non-numeric values: {e}") from e


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def load_matrix(
    path: PathLike,
    samples_as_rows: bool = False,
    layer: Optional[str] = None,
) -> pd.DataFrame:
    """Read a numeric matrix from CSV/TSV or ``.h5ad``.

    Parameters
    ----------
    path : PathLike
        Input file. Delimited text must carry identifiers in the first column.
    samples_as_rows : bool
        Delimited text is stored samples x features (transposed on read).
    layer : str, optional
        AnnData layer to read.

    Returns
    -------
    pd.DataFrame
        Features x samples matrix.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Matrix not found: {file_path}")

    if file_path.suffix == ".h5ad":
        import anndata as ad

        adata = ad.read_h5ad(file_path)
        logger.info("Loaded %d cells x %d features from %s", adata.n_obs, adata.n_vars, file_path)
        return as_feature_frame(adata, layer=layer)

    sep = "\t" if file_path.suffix in (".tsv", ".txt") else ","
    df = pd.read_csv(file_path, sep=sep, index_col=0)
    if samples_as_rows:
        df = df.T
    logger.info("Loaded %d features x %d samples from %s", df.shape[0], df.shape[1], file_path)
    return as_feature_frame(df)


def load_labels(
    path: PathLike,
    column: Optional[str] = None,
) -> pd.Series:
    """Read a sample -> label table.

    Parameters
    ----------
    path : PathLike
        CSV/TSV with sample identifiers in the first column.
    column : str, optional
        Label column. Defaults to the first data column.

    Returns
    -------
    pd.Series
        Labels as strings indexed by sample identifier.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Label table not found: {file_path}")
    sep = "\t" if file_path.suffix in (".tsv", ".txt") else ","
    df = pd.read_csv(file_path, sep=sep, index_col=0)
    if df.empty or df.shape[1] == 0:
        raise DataError(f"Label table {file_path} is empty")
    if column is None:
        column = df.columns[0]
    if column not in df.columns:
        raise DataError(f"Label column '{column}' not found in {file_path}")
    labels = df[column].copy()
    labels.index = labels.index.astype(str)
    return labels.astype(str)


def write_dataframe(df: pd.DataFrame, path: PathLike, *, index: bool = False) -> Path:
    """Write DataFrame to path ensuring the parent directory exists."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index)
    return output_path
