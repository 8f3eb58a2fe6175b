"""Backend adapters, rate gating and error categorization."""
