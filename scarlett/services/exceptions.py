"""
Errors raised by the study services
"""


class StudyServiceError(Exception):
    """Base class for study service errors"""


class SessionNotFoundError(StudyServiceError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionAlreadyCompletedError(StudyServiceError):
    def __init__(self, session_id: str):
        super().__init__(f"Session already completed: {session_id}")
        self.session_id = session_id


class UnknownQuestionError(StudyServiceError):
    def __init__(self, question_uuid: str):
        super().__init__(f"Question is not part of this session: {question_uuid}")
        self.question_uuid = question_uuid


class InvalidAnswerError(StudyServiceError):
    """Answer cannot be judged (no label and no correctness flag, or no answer key)"""


class NoQuestionsError(StudyServiceError):
    def __init__(self, song_id: str, locale: str):
        super().__init__(f"No questions for song {song_id} ({locale})")
        self.song_id = song_id
        self.locale = locale


class ContentUnavailableError(StudyServiceError):
    """Content store could not be reached or returned an unusable payload"""


class ProgressStoreError(StudyServiceError):
    """Progress store read or write failed"""


class SessionStoreError(StudyServiceError):
    """Session store read or write failed"""


class SessionConflictError(StudyServiceError):
    def __init__(self, session_id: str):
        super().__init__(f"Session is being updated concurrently: {session_id}")
        self.session_id = session_id
