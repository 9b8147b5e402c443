"""CineCRM - spreadsheet import and reconciliation for projector service cases."""

__version__ = "0.1.0"
