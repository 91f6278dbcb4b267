"""ActionSession adapters."""

from fleet.adapters.session.dry_run import DryRunSession

__all__ = ["DryRunSession"]
