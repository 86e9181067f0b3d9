"""
Algorithms package for the OS Puzzle core.
Contains Banker's avoidance, deadlock detection, CPU scheduling, the
safe-sequence puzzle and challenge evaluation.
"""
