"""xlforge: apply reviewed AI edit plans to spreadsheet grids."""

__version__ = "0.1.0"
