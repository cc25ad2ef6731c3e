"""
Ligand-receptor interaction scoring for SpotScape.

Two stages:

1. Effective expression: each ligand/receptor gene is re-estimated per
   spot as an inverse-distance weighted blend of its own expression and
   its neighbors'. Secreted ligands reach across ``secreted_radius``,
   contact ligands and receptors only across ``contact_radius``.
2. Interaction score: for every (ligand, receptor) pair and spot, the
   effective ligand and receptor levels are combined into one intensity.
   Multi-subunit complexes ("TGFBR1+TGFBR2") resolve to the minimum (or
   geometric mean) of their subunits.

Pairs referencing genes absent from the expression table are reported
and scored as missing rather than aborting the run.
"""

import math
import warnings
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from ..errors import DimensionMismatchError, EmptyInputError, MissingGeneError
from ..utils.genes import match_genes, rm_duplicates
from .neighbors import NeighborIndex
from .weights import (
    DEFAULT_POWER,
    DEFAULT_SELF_DISTANCE,
    aggregate,
    aggregation_weights,
)

__all__ = [
    'load_lr_database',
    'split_complex',
    'calc_effective_expression',
    'resolve_complex',
    'calc_lr_scores',
    'aggregate_pathway_scores',
    'DEFAULT_SECRETED_RADIUS',
    'DEFAULT_CONTACT_RADIUS',
    'SECRETED',
    'CONTACT',
]

# Lattice steps reached by secreted and membrane-bound proteins
DEFAULT_SECRETED_RADIUS = 2.0
DEFAULT_CONTACT_RADIUS = 1.0

SECRETED = "Secreted Signaling"
CONTACT = "Cell-Cell Contact"
ECM = "ECM-Receptor"

COMPLEX_SEP = "+"


def load_lr_database(
    database: Literal["builtin", "custom"] = "builtin",
    custom_path: Optional[str] = None
) -> pd.DataFrame:
    """
    Load ligand-receptor interaction database.

    Parameters
    ----------
    database : str, default "builtin"
        "builtin" for the bundled minimal set, "custom" to read ``custom_path``.
    custom_path : str, optional
        CSV/TSV with at least 'ligand' and 'receptor' columns; 'pathway'
        and 'annotation' are optional. Complex subunits joined with "+".

    Returns
    -------
    pd.DataFrame
        Columns 'ligand', 'receptor', 'pathway', 'annotation'. The
        annotation is one of "Secreted Signaling", "Cell-Cell Contact",
        "ECM-Receptor" and selects the diffusion range of the ligand.

    Notes
    -----
    The built-in table covers common cytokine, growth factor, checkpoint
    and adhesion pairs for testing. Full CellChatDB / CellPhoneDB tables
    exported to CSV can be loaded with ``database="custom"``.
    """
    if database == "custom":
        if custom_path is None:
            raise ValueError("custom_path is required for database='custom'")
        path = Path(custom_path)
        sep = "\t" if path.suffix in (".tsv", ".txt") else ","
        lr = pd.read_csv(path, sep=sep)
        missing = [c for c in ("ligand", "receptor") if c not in lr.columns]
        if missing:
            raise ValueError(f"L-R database {custom_path} lacks column(s): {missing}")
        if "pathway" not in lr.columns:
            lr["pathway"] = ""
        if "annotation" not in lr.columns:
            lr["annotation"] = SECRETED
        lr["annotation"] = lr["annotation"].fillna(SECRETED)
        lr["pathway"] = lr["pathway"].fillna("")
        return lr.reset_index(drop=True)

    if database != "builtin":
        raise ValueError(f"Unknown database: {database}. Use 'builtin' or 'custom'.")

    minimal_lr = pd.DataFrame([
        # Cytokine signaling
        ('IL6', 'IL6R+IL6ST', 'IL6', SECRETED),
        ('TNF', 'TNFRSF1A', 'TNF', SECRETED),
        ('TNF', 'TNFRSF1B', 'TNF', SECRETED),
        ('IFNG', 'IFNGR1+IFNGR2', 'IFN-II', SECRETED),
        ('IL1B', 'IL1R1+IL1RAP', 'IL1', SECRETED),
        ('TGFB1', 'TGFBR1+TGFBR2', 'TGFb', SECRETED),
        ('VEGFA', 'FLT1', 'VEGF', SECRETED),
        ('VEGFA', 'KDR', 'VEGF', SECRETED),
        ('CXCL12', 'CXCR4', 'CXCL', SECRETED),
        ('CXCL13', 'CXCR5', 'CXCL', SECRETED),
        ('CCL19', 'CCR7', 'CCL', SECRETED),
        ('CCL21', 'CCR7', 'CCL', SECRETED),
        ('CCL2', 'CCR2', 'CCL', SECRETED),
        ('CCL5', 'CCR5', 'CCL', SECRETED),
        # Growth factors
        ('EGF', 'EGFR', 'EGF', SECRETED),
        ('HGF', 'MET', 'HGF', SECRETED),
        ('PDGFB', 'PDGFRB', 'PDGF', SECRETED),
        ('FGF2', 'FGFR1', 'FGF', SECRETED),
        # Immune checkpoints and co-stimulation
        ('CD274', 'PDCD1', 'PD-L1', CONTACT),
        ('CD80', 'CD28', 'CD80', CONTACT),
        ('CD80', 'CTLA4', 'CD80', CONTACT),
        ('CD86', 'CD28', 'CD86', CONTACT),
        # Notch signaling
        ('DLL1', 'NOTCH1', 'NOTCH', CONTACT),
        ('JAG1', 'NOTCH1', 'NOTCH', CONTACT),
        # Extracellular matrix
        ('COL1A1', 'ITGA1+ITGB1', 'COLLAGEN', ECM),
        ('FN1', 'ITGA5+ITGB1', 'FN1', ECM),
    ], columns=['ligand', 'receptor', 'pathway', 'annotation'])

    return minimal_lr


def split_complex(name: str, sep: str = COMPLEX_SEP) -> List[str]:
    """Subunit genes of a (possibly multi-subunit) gene name."""
    return [part.strip() for part in str(name).split(sep) if part.strip()]


def _is_contact(annotation) -> bool:
    return isinstance(annotation, str) and "contact" in annotation.lower()


def _pair_name(ligand: str, receptor: str) -> str:
    return f"{ligand}_{receptor}"


def _ordered_unique(items) -> List[str]:
    return list(dict.fromkeys(items))


def _align_expression(expression: pd.DataFrame, index: NeighborIndex) -> pd.DataFrame:
    if not isinstance(expression, pd.DataFrame):
        raise TypeError("expression must be a DataFrame (genes × spots)")
    if expression.shape[0] == 0 or expression.shape[1] == 0:
        raise EmptyInputError(f"Expression table is empty: shape {expression.shape}")

    missing = index.spot_ids.difference(expression.columns)
    extra = expression.columns.difference(index.spot_ids)
    if len(missing) > 0 or len(extra) > 0:
        raise DimensionMismatchError(
            f"Expression columns do not match the neighbor index "
            f"({len(missing)} spot(s) missing, {len(extra)} unknown)"
        )

    if expression.index.has_duplicates:
        n_dup = int(expression.index.duplicated().sum())
        warnings.warn(
            f"{n_dup} duplicated gene row(s) in expression; keeping the highest-expressed.",
            RuntimeWarning
        )
        expression = rm_duplicates(expression, keep="max_sum")

    return expression


def _diffuse_chunk(
    expression: pd.DataFrame,
    genes: List[str],
    index: NeighborIndex,
    weights
) -> pd.DataFrame:
    """Effective expression of one chunk of genes, genes × spots."""
    values = expression.loc[genes].T
    smoothed = aggregate(values, index, weights=weights)
    return smoothed.T


def _diffuse_genes(
    expression: pd.DataFrame,
    genes: List[str],
    index: NeighborIndex,
    weights,
    n_jobs: int,
    chunk_size: int,
    progress: Callable[[], None]
) -> pd.DataFrame:
    if not genes:
        return pd.DataFrame(columns=expression.columns, dtype=np.float64)

    chunks = [genes[i:i + chunk_size] for i in range(0, len(genes), chunk_size)]

    parts: Dict[int, pd.DataFrame] = {}
    if n_jobs == 1:
        for k, chunk in enumerate(chunks):
            parts[k] = _diffuse_chunk(expression, chunk, index, weights)
            progress()
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            futures = {
                executor.submit(_diffuse_chunk, expression, chunk, index, weights): k
                for k, chunk in enumerate(chunks)
            }
            for future, k in futures.items():
                parts[k] = future.result()
                progress()

    merged = pd.concat([parts[k] for k in range(len(chunks))], axis=0)
    return merged.reindex(genes)


def calc_effective_expression(
    expression: pd.DataFrame,
    index: NeighborIndex,
    lr_pairs: pd.DataFrame,
    secreted_radius: float = DEFAULT_SECRETED_RADIUS,
    contact_radius: float = DEFAULT_CONTACT_RADIUS,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE,
    case_sensitive: bool = True,
    n_jobs: int = 1,
    chunk_size: int = 200,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    verbose: bool = False
) -> Dict[str, pd.DataFrame]:
    """
    Diffusion-adjusted expression of every ligand and receptor gene.

    Parameters
    ----------
    expression : pd.DataFrame
        Gene expression matrix (genes × spots). Columns must match the
        spots of ``index``.
    index : NeighborIndex
        Neighbor index with radius >= max(secreted_radius, contact_radius).
    lr_pairs : pd.DataFrame
        L-R pairs from ``load_lr_database``.
    secreted_radius : float, default 2.0
        Reach of secreted / ECM ligands, in lattice steps.
    contact_radius : float, default 1.0
        Reach of contact ligands and of receptors, in lattice steps.
    power, self_distance : float
        Inverse-distance weighting parameters.
    case_sensitive : bool, default True
        Match database genes to expression rows case-sensitively.
    n_jobs : int, default 1
        Worker threads; genes are processed in independent chunks.
    chunk_size : int, default 200
        Genes per chunk.
    progress_callback : callable, optional
        Called with (chunks_done, n_chunks) after every chunk.
    verbose : bool, default False
        Print progress information.

    Returns
    -------
    dict
        - 'ligand': genes × spots, ligand subunits at their ligand range
        - 'receptor': genes × spots, receptor subunits at contact range
        - 'missing': list of referenced genes absent from ``expression``
        Frames are indexed by the gene names used in ``lr_pairs``.
    """
    if len(lr_pairs) == 0:
        raise EmptyInputError("lr_pairs is empty")
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if n_jobs < 1:
        raise ValueError("n_jobs must be >= 1")

    needed = max(secreted_radius, contact_radius)
    if needed > index.radius:
        raise ValueError(
            f"Neighbor index radius ({index.radius}) is smaller than the diffusion radius ({needed})"
        )

    expression = _align_expression(expression, index)

    secreted_genes, contact_genes, receptor_genes = [], [], []
    for _, row in lr_pairs.iterrows():
        subunits = split_complex(row['ligand'])
        if _is_contact(row.get('annotation', SECRETED)):
            contact_genes.extend(subunits)
        else:
            secreted_genes.extend(subunits)
        receptor_genes.extend(split_complex(row['receptor']))

    referenced = _ordered_unique(secreted_genes + contact_genes + receptor_genes)
    lookup = match_genes(referenced, list(expression.index), case_sensitive=case_sensitive)
    missing = [g for g in referenced if lookup[g] is None]

    # Rows renamed to the database symbols
    present = [g for g in referenced if lookup[g] is not None]
    expr = expression.loc[[lookup[g] for g in present]]
    expr.index = pd.Index(present)

    def keep(genes):
        return [g for g in _ordered_unique(genes) if lookup[g] is not None]

    secreted_genes = keep(secreted_genes)
    contact_genes = keep(contact_genes)
    receptor_genes = keep(receptor_genes)

    secreted_index = index.restrict(secreted_radius)
    contact_index = index.restrict(contact_radius)
    w_secreted = aggregation_weights(
        secreted_index, method="weighted", power=power, self_distance=self_distance
    )
    w_contact = aggregation_weights(
        contact_index, method="weighted", power=power, self_distance=self_distance
    )

    n_chunks = sum(
        math.ceil(len(g) / chunk_size)
        for g in (secreted_genes, contact_genes, receptor_genes)
    )
    done = [0]

    def progress():
        done[0] += 1
        if progress_callback is not None:
            progress_callback(done[0], n_chunks)

    if verbose:
        print("Effective expression:")
        print(f"  Genes: {len(secreted_genes)} secreted ligand, {len(contact_genes)} contact ligand, "
              f"{len(receptor_genes)} receptor ({len(missing)} missing)")
        print(f"  Radius: secreted={secreted_radius}, contact={contact_radius}; "
              f"{n_chunks} chunk(s), n_jobs={n_jobs}")

    secreted = _diffuse_genes(expr, secreted_genes, secreted_index, w_secreted,
                              n_jobs, chunk_size, progress)
    contact = _diffuse_genes(expr, contact_genes, contact_index, w_contact,
                             n_jobs, chunk_size, progress)
    receptor = _diffuse_genes(expr, receptor_genes, contact_index, w_contact,
                              n_jobs, chunk_size, progress)

    # A gene used both as secreted and as contact ligand keeps the secreted range
    contact = contact.loc[~contact.index.isin(secreted.index)]
    parts = [frame for frame in (secreted, contact) if len(frame) > 0]
    ligand = pd.concat(parts, axis=0) if parts else secreted

    if verbose:
        print("  Done.")

    return {
        'ligand': ligand[expression.columns],
        'receptor': receptor[expression.columns],
        'missing': missing,
    }


def resolve_complex(
    effective: pd.DataFrame,
    name: str,
    method: Literal["min", "geometric"] = "min",
    sep: str = COMPLEX_SEP
) -> pd.Series:
    """
    Per-spot level of a gene or multi-subunit complex.

    Parameters
    ----------
    effective : pd.DataFrame
        Effective expression (genes × spots).
    name : str
        Gene name or complex ("A+B").
    method : {"min", "geometric"}, default "min"
        How subunits combine; a complex needs all of them.

    Raises
    ------
    MissingGeneError
        If any subunit is absent from ``effective``.
    """
    subunits = split_complex(name, sep=sep)
    absent = [g for g in subunits if g not in effective.index]
    if absent:
        raise MissingGeneError(absent, context=name)

    if len(subunits) == 1:
        return effective.loc[subunits[0]].rename(name)

    values = effective.loc[subunits].to_numpy(dtype=np.float64)
    if method == "min":
        level = values.min(axis=0)
    elif method == "geometric":
        with np.errstate(invalid="ignore"):
            level = np.exp(np.log(np.clip(values, 0, None)).mean(axis=0))
    else:
        raise ValueError(f"Unknown complex method: {method}")

    return pd.Series(level, index=effective.columns, name=name)


def _interaction(l_expr: np.ndarray, r_expr: np.ndarray, method: str) -> np.ndarray:
    if method == "product":
        return l_expr * r_expr
    elif method == "geometric":
        with np.errstate(invalid="ignore"):
            return np.sqrt(np.clip(l_expr * r_expr, 0, None))
    elif method == "mean":
        return (l_expr + r_expr) / 2
    elif method == "min":
        return np.minimum(l_expr, r_expr)
    raise ValueError(f"Unknown method: {method}")


def calc_lr_scores(
    expression: pd.DataFrame,
    index: NeighborIndex,
    lr_pairs: pd.DataFrame,
    method: Literal["product", "geometric", "mean", "min"] = "product",
    complex_method: Literal["min", "geometric"] = "min",
    secreted_radius: float = DEFAULT_SECRETED_RADIUS,
    contact_radius: float = DEFAULT_CONTACT_RADIUS,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE,
    strict: bool = False,
    effective: Optional[Dict[str, pd.DataFrame]] = None,
    n_jobs: int = 1,
    chunk_size: int = 200,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    verbose: bool = False
) -> pd.DataFrame:
    """
    Score L-R interactions for each spatial location.

    Parameters
    ----------
    expression : pd.DataFrame
        Gene expression matrix (genes × spots).
    index : NeighborIndex
        Neighbor index with radius >= max(secreted_radius, contact_radius).
    lr_pairs : pd.DataFrame
        L-R pairs DataFrame ('ligand', 'receptor', optional 'annotation').
    method : str, default "product"
        Scoring method:
        - "product": ligand_expr * receptor_expr
        - "geometric": sqrt(ligand_expr * receptor_expr)
        - "mean": (ligand_expr + receptor_expr) / 2
        - "min": min(ligand_expr, receptor_expr)
    complex_method : {"min", "geometric"}, default "min"
        Subunit combination for complexes.
    secreted_radius, contact_radius : float
        Diffusion ranges, see ``calc_effective_expression``.
    power, self_distance : float
        Inverse-distance weighting parameters.
    strict : bool, default False
        Raise ``MissingGeneError`` on the first pair with a missing gene
        instead of scoring it as NaN.
    effective : dict, optional
        Precomputed output of ``calc_effective_expression``.
    n_jobs, chunk_size, progress_callback, verbose
        Passed to ``calc_effective_expression``.

    Returns
    -------
    pd.DataFrame
        Interaction scores (lr_pairs × spots), rows named
        "{ligand}_{receptor}", columns in ``expression`` order. Pairs with
        a missing gene are all-NaN rows.

    Examples
    --------
    >>> index = build_neighbor_index(coords, radius=2)
    >>> lr_pairs = load_lr_database()
    >>> scores = calc_lr_scores(expression, index, lr_pairs)
    >>> scores.loc['CXCL13_CXCR5'].nlargest(5)
    """
    if len(lr_pairs) == 0:
        raise EmptyInputError("lr_pairs is empty")

    pairs = lr_pairs.drop_duplicates(subset=['ligand', 'receptor'])

    if effective is None:
        effective = calc_effective_expression(
            expression, index, pairs,
            secreted_radius=secreted_radius, contact_radius=contact_radius,
            power=power, self_distance=self_distance,
            n_jobs=n_jobs, chunk_size=chunk_size,
            progress_callback=progress_callback, verbose=verbose
        )

    spots = effective['ligand'].columns
    names = []
    rows = []
    skipped: List[Tuple[str, List[str]]] = []

    for _, row in pairs.iterrows():
        name = _pair_name(row['ligand'], row['receptor'])
        names.append(name)
        try:
            ligand = resolve_complex(effective['ligand'], row['ligand'], method=complex_method)
            receptor = resolve_complex(effective['receptor'], row['receptor'], method=complex_method)
        except MissingGeneError as err:
            if strict:
                raise
            skipped.append((name, err.genes))
            rows.append(np.full(len(spots), np.nan))
            continue

        rows.append(_interaction(
            ligand.to_numpy(dtype=np.float64),
            receptor.reindex(spots).to_numpy(dtype=np.float64),
            method
        ))

    if skipped:
        detail = "; ".join(f"{name} ({', '.join(genes)})" for name, genes in skipped[:10])
        more = f"; ... {len(skipped) - 10} more" if len(skipped) > 10 else ""
        warnings.warn(
            f"{len(skipped)}/{len(pairs)} L-R pair(s) scored as missing, gene(s) not found: {detail}{more}",
            RuntimeWarning
        )

    if verbose:
        print(f"  Scored {len(pairs) - len(skipped)}/{len(pairs)} L-R pairs over {len(spots)} spots")

    return pd.DataFrame(
        np.vstack(rows) if rows else np.zeros((0, len(spots))),
        index=pd.Index(names, name='lr_pair'),
        columns=spots
    )


def aggregate_pathway_scores(
    lr_scores: pd.DataFrame,
    lr_pairs: pd.DataFrame,
    method: Literal["mean", "sum", "max"] = "mean"
) -> pd.DataFrame:
    """
    Aggregate per-spot L-R scores by signaling pathway.

    Parameters
    ----------
    lr_scores : pd.DataFrame
        Output of ``calc_lr_scores`` (lr_pairs × spots).
    lr_pairs : pd.DataFrame
        L-R pairs with 'pathway' column.
    method : str, default "mean"
        Aggregation method; missing pair scores are skipped.

    Returns
    -------
    pd.DataFrame
        Pathways × spots. A pathway whose pairs are all missing at a spot
        is NaN there.
    """
    if 'pathway' not in lr_pairs.columns:
        raise ValueError("lr_pairs must have 'pathway' column")
    if method not in ("mean", "sum", "max"):
        raise ValueError(f"Unknown method: {method}")

    pathway_of = {}
    for _, row in lr_pairs.iterrows():
        pathway = row['pathway']
        if pd.isna(pathway) or pathway == '':
            continue
        pathway_of.setdefault(_pair_name(row['ligand'], row['receptor']), pathway)

    scored = lr_scores.loc[lr_scores.index.isin(list(pathway_of))]
    keys = scored.index.map(pathway_of)

    grouped = scored.groupby(keys, sort=False)
    if method == "mean":
        result = grouped.mean()
    elif method == "sum":
        result = grouped.sum(min_count=1)
    else:
        result = grouped.max()

    result.index.name = 'pathway'
    return result
