"""
Data Ingestion

Modules:
- loaders: Read criteria, evaluations and judge assignments from files
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "load_criteria_csv":
        from fairrank.ingestion.loaders import load_criteria_csv
        return load_criteria_csv
    if name == "load_evaluations":
        from fairrank.ingestion.loaders import load_evaluations
        return load_evaluations
    if name == "load_assignments_csv":
        from fairrank.ingestion.loaders import load_assignments_csv
        return load_assignments_csv
    if name == "IngestionError":
        from fairrank.ingestion.loaders import IngestionError
        return IngestionError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
