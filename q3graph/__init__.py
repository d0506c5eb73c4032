"""q3graph: dependency graphs for Quake III content trees."""

__version__ = "0.3.0"
