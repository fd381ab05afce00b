"""Store operations backend: inventory stocktake engine."""
