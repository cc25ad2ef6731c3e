#!/usr/bin/env python3
"""
SpotScape Command Line Interface

Spatial scoring of spot-based transcriptomics.

Usage:
    spotscape tni -i <metadata> -o <output> [options]
    spotscape tls -i <metadata> -o <output> [options]
    spotscape lr -i <expression> -c <coords> -o <output> [options]
    spotscape codist -i <proportions> -o <output> [options]
    spotscape infiltration -i <proportions> -o <output> --immune-types ...

Examples:
    # Tumor-normal interface from a spot table with x/y, ES and domain columns
    spotscape tni -i spots.csv -o tni.csv --score-col tumor_es --domain-col domain

    # TLS score from two signatures and a co-distribution column
    spotscape tls -i spots.csv -o tls.csv --sig1-col tls_sig --sig2-col bcell_sig \\
        --codist-col B_cell_T_cell --domain-col domain

    # Ligand-receptor scores (genes × spots expression, spots × x/y coordinates)
    spotscape lr -i expression.tsv -c coords.csv -o lr_scores.csv --radius 2

    # Cell-type co-distribution from deconvolution proportions
    spotscape codist -i proportions.csv -o codist.csv --cell-types B_cell T_cell
"""

import argparse
import sys
from pathlib import Path


def _read_table(path, index_col=0):
    """Read a CSV/TSV table, spots or genes as index."""
    import pandas as pd

    path = Path(path)
    if path.suffix in [".csv"]:
        return pd.read_csv(path, index_col=index_col)
    elif path.suffix in [".tsv", ".txt"]:
        return pd.read_csv(path, sep="\t", index_col=index_col)
    raise ValueError(f"Unsupported file format: {path.suffix}")


def _write_table(table, path) -> None:
    path = Path(path)
    sep = "\t" if path.suffix in [".tsv", ".txt"] else ","
    table.to_csv(path, sep=sep)


def _banner(title: str, rows) -> None:
    print("=" * 60)
    print(f"SpotScape - {title}")
    print("=" * 60)
    for key, value in rows:
        print(f"{key + ':':<14}{value}")
    print("=" * 60)


def _load_coords(args, source):
    from spotscape import load_coordinates

    return load_coordinates(
        source,
        platform=args.platform,
        hex_correct=args.hex_correct,
        axis=args.axis,
    )


def _require_columns(table, columns, what: str) -> None:
    missing = [c for c in columns if c is not None and c not in table.columns]
    if missing:
        raise KeyError(f"{what} lacks column(s): {missing}")


def setup_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument(
        "-i", "--input",
        required=True,
        help="Input CSV/TSV file"
    )
    parser.add_argument(
        "-o", "--output",
        required=True,
        help="Output CSV/TSV file"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output"
    )


def setup_spatial_args(parser: argparse.ArgumentParser, radius: float) -> None:
    """Add coordinate and neighborhood arguments to a parser."""
    parser.add_argument(
        "-r", "--radius",
        type=float,
        default=radius,
        help=f"Neighborhood radius in lattice steps (default: {radius})"
    )
    parser.add_argument(
        "--platform",
        default="visium",
        choices=["visium", "st"],
        help="Spot layout: visium (hexagonal) or st (square) (default: visium)"
    )
    parser.add_argument(
        "--hex-correct",
        action="store_true",
        help="Snap coordinates onto the ideal lattice"
    )
    parser.add_argument(
        "--axis",
        default="horizontal",
        choices=["horizontal", "vertical"],
        help="Orientation of hexagonal spot lines (default: horizontal)"
    )


def cmd_tni(args: argparse.Namespace) -> int:
    """Run tumor-normal interface identification."""
    from spotscape import identify_tni

    verbose = not args.quiet and args.verbose

    if verbose:
        _banner("Tumor-Normal Interface", [
            ("Input", args.input),
            ("Output", args.output),
            ("Radius", args.radius),
            ("Band", f"[{args.minval}, {args.maxval}]"),
            ("Class method", args.class_method),
        ])

    spots = _read_table(args.input)
    _require_columns(spots, [args.score_col, args.domain_col, args.es_col], "Input")

    coords = _load_coords(args, spots)
    domains = spots[args.domain_col].astype(str).where(spots[args.domain_col].notna())

    result = identify_tni(
        coords,
        spots[args.score_col],
        domains,
        radius=args.radius,
        minval=args.minval,
        maxval=args.maxval,
        es=spots[args.es_col] if args.es_col else None,
        min_neighbors=args.min_neighbors,
        rescale=not args.no_rescale,
        class_method=args.class_method,
        by_group=args.by_group,
        verbose=verbose
    )

    _write_table(result, args.output)

    if not args.quiet:
        counts = result['tni_class'].value_counts()
        print("\n" + "\n".join(f"  {k}: {v}" for k, v in counts.items()))
        print(f"\nResults saved to: {args.output}")

    return 0


def cmd_tls(args: argparse.Namespace) -> int:
    """Run tertiary lymphoid structure scoring."""
    from spotscape import build_neighbor_index, calc_tls_score, codistribution_pair

    verbose = not args.quiet and args.verbose

    if verbose:
        _banner("TLS Score", [
            ("Input", args.input),
            ("Output", args.output),
            ("Radius", args.radius),
            ("Combine", args.combine),
        ])

    spots = _read_table(args.input)
    _require_columns(spots, [args.sig1_col, args.sig2_col, args.domain_col], "Input")

    if args.codist_col is not None:
        _require_columns(spots, [args.codist_col], "Input")
        codist = spots[args.codist_col]
    elif args.cell_types is not None:
        codist = codistribution_pair(spots, args.cell_types[0], args.cell_types[1])
    else:
        raise ValueError("Either --codist-col or --cell-types is required")

    coords = _load_coords(args, spots)
    index = build_neighbor_index(coords, radius=args.radius)

    result = calc_tls_score(
        spots[args.sig1_col],
        spots[args.sig2_col],
        codist,
        index,
        domains=spots[args.domain_col] if args.domain_col else None,
        combine=args.combine,
        rescale=not args.no_rescale
    )

    _write_table(result, args.output)

    if not args.quiet:
        print(f"\nResults saved to: {args.output}")

    return 0


def cmd_lr(args: argparse.Namespace) -> int:
    """Run ligand-receptor interaction scoring."""
    from spotscape import (
        build_neighbor_index,
        load_lr_database,
        calc_lr_scores,
        aggregate_pathway_scores,
    )

    verbose = not args.quiet and args.verbose

    if verbose:
        _banner("Ligand-Receptor Scoring", [
            ("Input", args.input),
            ("Coords", args.coords or "(from input)"),
            ("Output", args.output),
            ("Database", args.lr_file or "builtin"),
            ("Radius", f"secreted={args.secreted_radius}, contact={args.contact_radius}"),
            ("Method", args.method),
            ("Jobs", args.n_jobs),
        ])

    input_path = Path(args.input)
    if input_path.suffix == ".h5ad":
        import anndata
        adata = anndata.read_h5ad(input_path)
        expression = adata.to_df().T  # spots x genes -> genes x spots
        coord_source = adata if args.coords is None else _read_table(args.coords)
    else:
        expression = _read_table(input_path)
        if args.coords is None:
            raise ValueError("--coords is required for CSV/TSV expression input")
        coord_source = _read_table(args.coords)

    if verbose:
        print(f"Loaded expression: {expression.shape[0]} genes × {expression.shape[1]} spots")

    coords = _load_coords(args, coord_source)
    lr_pairs = load_lr_database(
        database="custom" if args.lr_file else "builtin",
        custom_path=args.lr_file
    )

    radius = max(args.radius, args.secreted_radius, args.contact_radius)
    index = build_neighbor_index(coords, radius=radius)

    scores = calc_lr_scores(
        expression[coords.index],
        index,
        lr_pairs,
        method=args.method,
        secreted_radius=args.secreted_radius,
        contact_radius=args.contact_radius,
        n_jobs=args.n_jobs,
        verbose=verbose
    )

    if args.pathway:
        scores = aggregate_pathway_scores(scores, lr_pairs)

    _write_table(scores, args.output)

    if not args.quiet:
        print(f"\nResults saved to: {args.output}")

    return 0


def cmd_codist(args: argparse.Namespace) -> int:
    """Run cell-type co-distribution scoring."""
    from spotscape import calc_codistribution

    verbose = not args.quiet and args.verbose

    if verbose:
        _banner("Co-distribution", [
            ("Input", args.input),
            ("Output", args.output),
            ("Cell types", ", ".join(args.cell_types) if args.cell_types else "all"),
            ("Method", args.method),
        ])

    proportions = _read_table(args.input)
    result = calc_codistribution(
        proportions,
        cell_types=args.cell_types,
        method=args.method,
        min_prop=args.min_prop,
        sort=args.sort
    )

    if verbose:
        print(f"Scored {result.shape[1]} pairs over {result.shape[0]} spots")

    _write_table(result, args.output)

    if not args.quiet:
        print(f"\nResults saved to: {args.output}")

    return 0


def cmd_infiltration(args: argparse.Namespace) -> int:
    """Run immune infiltration scoring."""
    from spotscape import calc_immune_infiltration

    verbose = not args.quiet and args.verbose

    if verbose:
        _banner("Immune Infiltration", [
            ("Input", args.input),
            ("Output", args.output),
            ("Immune types", ", ".join(args.immune_types)),
        ])

    proportions = _read_table(args.input)
    result = calc_immune_infiltration(
        proportions,
        args.immune_types,
        min_prop=args.min_prop,
        normalize=args.normalize,
        zero_fill=args.zero_fill
    )

    _write_table(result, args.output)

    if not args.quiet:
        print(f"\nResults saved to: {args.output}")

    return 0


def main(argv=None) -> int:
    """Main entry point."""
    from spotscape import (
        __version__,
        DEFAULT_RADIUS,
        DEFAULT_SECRETED_RADIUS,
        DEFAULT_CONTACT_RADIUS,
        DEFAULT_TNI_BAND,
    )
    from spotscape.spatial import TLS_COMBINERS

    parser = argparse.ArgumentParser(
        prog="spotscape",
        description="SpotScape: spatial scoring of spot-based transcriptomics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="Commands",
        description="Available analysis commands"
    )

    # Tumor-normal interface
    tni_parser = subparsers.add_parser(
        "tni",
        help="Identify tumor-normal interface spots",
        description="Score, band-pass, group and classify the tumor-normal interface"
    )
    setup_common_args(tni_parser)
    setup_spatial_args(tni_parser, DEFAULT_RADIUS)
    tni_parser.add_argument(
        "--score-col",
        required=True,
        help="Column with the tumor enrichment score"
    )
    tni_parser.add_argument(
        "--domain-col",
        required=True,
        help="Column with domain / cluster labels"
    )
    tni_parser.add_argument(
        "--es-col",
        default=None,
        help="Column with tumor abundance for the side call (default: --score-col)"
    )
    tni_parser.add_argument(
        "--minval",
        type=float,
        default=DEFAULT_TNI_BAND[0],
        help=f"Lower band limit (default: {DEFAULT_TNI_BAND[0]})"
    )
    tni_parser.add_argument(
        "--maxval",
        type=float,
        default=DEFAULT_TNI_BAND[1],
        help=f"Upper band limit (default: {DEFAULT_TNI_BAND[1]})"
    )
    tni_parser.add_argument(
        "--min-neighbors",
        type=int,
        default=0,
        help="Minimum TNI neighbors to keep a TNI spot (default: 0)"
    )
    tni_parser.add_argument(
        "--class-method",
        choices=["neighbors", "median"],
        default="neighbors",
        help="Reference for the tumor/normal side call (default: neighbors)"
    )
    tni_parser.add_argument(
        "--by-group",
        action="store_true",
        help="Prefix classes with their group name"
    )
    tni_parser.add_argument(
        "--no-rescale",
        action="store_true",
        help="Do not rescale the score to [0, 1]"
    )
    tni_parser.set_defaults(func=cmd_tni)

    # Tertiary lymphoid structures
    tls_parser = subparsers.add_parser(
        "tls",
        help="Score tertiary lymphoid structures",
        description="Combine two signature scores and a co-distribution signal"
    )
    setup_common_args(tls_parser)
    setup_spatial_args(tls_parser, DEFAULT_RADIUS)
    tls_parser.add_argument(
        "--sig1-col",
        required=True,
        help="Column with the first signature score"
    )
    tls_parser.add_argument(
        "--sig2-col",
        required=True,
        help="Column with the second signature score"
    )
    tls_parser.add_argument(
        "--codist-col",
        default=None,
        help="Column with a precomputed co-distribution score"
    )
    tls_parser.add_argument(
        "--cell-types",
        nargs=2,
        default=None,
        metavar=("TYPE_A", "TYPE_B"),
        help="Proportion columns to compute the co-distribution from"
    )
    tls_parser.add_argument(
        "--domain-col",
        default=None,
        help="Column with domain / cluster labels"
    )
    tls_parser.add_argument(
        "--combine",
        choices=list(TLS_COMBINERS),
        default="mean",
        help="Component combination rule (default: mean)"
    )
    tls_parser.add_argument(
        "--no-rescale",
        action="store_true",
        help="Do not rescale components to [0, 1]"
    )
    tls_parser.set_defaults(func=cmd_tls)

    # Ligand-receptor
    lr_parser = subparsers.add_parser(
        "lr",
        help="Score ligand-receptor interactions",
        description="Diffusion-adjusted ligand-receptor interaction scores per spot"
    )
    setup_common_args(lr_parser)
    setup_spatial_args(lr_parser, DEFAULT_SECRETED_RADIUS)
    lr_parser.add_argument(
        "-c", "--coords",
        default=None,
        help="Coordinate table (required unless input is .h5ad)"
    )
    lr_parser.add_argument(
        "--lr-file",
        default=None,
        help="Custom L-R database CSV/TSV (default: built-in)"
    )
    lr_parser.add_argument(
        "--method",
        choices=["product", "geometric", "mean", "min"],
        default="product",
        help="Interaction scoring method (default: product)"
    )
    lr_parser.add_argument(
        "--secreted-radius",
        type=float,
        default=DEFAULT_SECRETED_RADIUS,
        help=f"Secreted ligand reach in lattice steps (default: {DEFAULT_SECRETED_RADIUS})"
    )
    lr_parser.add_argument(
        "--contact-radius",
        type=float,
        default=DEFAULT_CONTACT_RADIUS,
        help=f"Contact ligand / receptor reach in lattice steps (default: {DEFAULT_CONTACT_RADIUS})"
    )
    lr_parser.add_argument(
        "--pathway",
        action="store_true",
        help="Aggregate pair scores by pathway"
    )
    lr_parser.add_argument(
        "-j", "--n-jobs",
        type=int,
        default=1,
        help="Worker threads (default: 1)"
    )
    lr_parser.set_defaults(func=cmd_lr)

    # Co-distribution
    codist_parser = subparsers.add_parser(
        "codist",
        help="Score pairwise cell-type co-distribution",
        description="Pairwise co-distribution from cell-type proportions (spots × types)"
    )
    setup_common_args(codist_parser)
    codist_parser.add_argument(
        "--cell-types",
        nargs="+",
        default=None,
        help="Cell types to pair (default: all columns)"
    )
    codist_parser.add_argument(
        "--method",
        choices=["product", "min", "geometric"],
        default="product",
        help="Pair score (default: product)"
    )
    codist_parser.add_argument(
        "--min-prop",
        type=float,
        default=0.0,
        help="Treat proportions below this as absent (default: 0)"
    )
    codist_parser.add_argument(
        "--sort",
        action="store_true",
        help="Sort pair names alphabetically"
    )
    codist_parser.set_defaults(func=cmd_codist)

    # Immune infiltration
    infil_parser = subparsers.add_parser(
        "infiltration",
        help="Score immune enrichment and diversity",
        description="Immune enrichment and Shannon diversity from cell-type proportions"
    )
    setup_common_args(infil_parser)
    infil_parser.add_argument(
        "--immune-types",
        nargs="+",
        required=True,
        help="Cell types counted as immune"
    )
    infil_parser.add_argument(
        "--min-prop",
        type=float,
        default=0.0,
        help="Minimum proportion counted towards diversity (default: 0)"
    )
    infil_parser.add_argument(
        "--normalize",
        action="store_true",
        help="Normalize diversity to [0, 1]"
    )
    infil_parser.add_argument(
        "--zero-fill",
        action="store_true",
        help="Treat missing proportions as 0"
    )
    infil_parser.set_defaults(func=cmd_infiltration)

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Run command
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
