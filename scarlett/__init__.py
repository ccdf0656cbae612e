"""
Scarlett Scheduler
Spaced-repetition question scheduling for song-based language quizzes
"""

__version__ = "0.1.0"
