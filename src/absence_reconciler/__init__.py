"""absence-reconciler — Match leave/absence sheets against the employee roster."""

__version__ = "0.1.0"

OUTPUT_HEADER: list[str] = ["USER-ID", "email", "absent from", "absent until"]
