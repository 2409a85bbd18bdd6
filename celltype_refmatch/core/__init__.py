"""Core modules for CellType-RefMatch.

Modules:
- reference: Labelled reference datasets and a repository of named references
- markers: Marker specification resolution and pairwise differential testing
- training: Immutable training artifacts
- scoring: Quantile Spearman scores per label
- finetune: Bounded narrowing of close labels
- pruning: MAD outlier rule on score deltas
- classification: Per-sample orchestration, engine and result tables
"""
