"""
Services layer: calibration, joint-score evaluation and the market library.

    calibrator  — prices or (supremacy, expectancy) → CalibrationResult
    evaluator   — MarketCondition → exact probability over both period tables
    markets     — named markets, handicaps, goal aggregates and the full board
"""
