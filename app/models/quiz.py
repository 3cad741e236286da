from sqlalchemy import Column, String, DateTime, Integer, Boolean, Float
from sqlalchemy.orm import relationship
from app.database import Base
from datetime import datetime
import pytz

# Set IST timezone
IST = pytz.timezone('Asia/Kolkata')

class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String, primary_key=True)  # UUID or generated code
    title = Column(String, nullable=False)
    mode = Column(String, nullable=False, default="practice")  # 'practice' or 'exam'
    time_limit_seconds = Column(Integer, nullable=True)  # ignored in practice mode

    # Pause policy (exam mode)
    pause_after_questions = Column(Integer, nullable=True)
    pause_duration_seconds = Column(Integer, nullable=True)  # null = manual resume
    auto_pause_after_questions = Column(Integer, nullable=True)

    shuffle_questions = Column(Boolean, default=False)
    shuffle_options = Column(Boolean, default=False)
    allow_multiple_attempts = Column(Boolean, default=False)
    max_attempts = Column(Integer, nullable=True)
    passing_score = Column(Float, nullable=True)  # percentage

    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(IST))

    # Relationships
    questions = relationship("Question", back_populates="quiz", cascade="all, delete-orphan")
    sessions = relationship("QuizSession", back_populates="quiz")

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, mode={self.mode})>"
