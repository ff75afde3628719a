"""
Odds Tracker
============

Mark-to-market revaluation of simulated prediction-market positions.
"""
