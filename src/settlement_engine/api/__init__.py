"""HTTP adapter over the settlement facade."""
