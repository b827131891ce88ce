"""Core mathematics and configuration for the scoreline pricing engine.

This package contains pure building blocks:

- ``model_config`` — every numeric constant of the model, env overrides
- ``odds_math``    — vig removal, odds/probability conversion, validation
- ``rate_model``   — Poisson score-probability tables for one period
- ``conditions``   — structured market predicates over a final score

Nothing in this package imports from ``scoreline.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
