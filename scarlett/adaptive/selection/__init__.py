from .question_selector import QuestionSelector, SESSION_SIZE

__all__ = ["QuestionSelector", "SESSION_SIZE"]
