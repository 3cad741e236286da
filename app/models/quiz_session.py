from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from app.database import Base

class QuizSession(Base):
    __tablename__ = "quiz_sessions"

    session_token = Column(String, primary_key=True)
    quiz_id = Column(String, ForeignKey("quizzes.id"), nullable=False)
    user_id = Column(String, nullable=False)
    mode = Column(String, nullable=False)
    status = Column(String, nullable=False, default="in_progress")
    version = Column(Integer, nullable=False, default=1)  # optimistic concurrency
    started_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    data = Column(JSON, nullable=False)  # full serialized session record

    # Active-session lookups go through (user_id, quiz_id); at most one live row per pair
    __table_args__ = (
        Index('ix_quiz_sessions_user_quiz', 'user_id', 'quiz_id'),
        Index(
            'ux_quiz_sessions_one_live',
            'user_id',
            'quiz_id',
            unique=True,
            postgresql_where=text("status IN ('in_progress', 'paused')"),
        ),
    )

    # Relationships
    quiz = relationship("Quiz", back_populates="sessions")

    def __repr__(self):
        return f"<QuizSession(token={self.session_token}, quiz_id={self.quiz_id}, status={self.status})>"
