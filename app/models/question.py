from sqlalchemy import Column, Integer, String, JSON, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True)
    quiz_id = Column(String, ForeignKey("quizzes.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    question_type = Column(String, nullable=False)  # 'single_choice', 'multi_choice', 'boolean', 'matching'
    question_text = Column(String, nullable=False)
    options = Column(JSON, nullable=False)  # [{"option_id", "text", "side"}]
    correct_answer = Column(JSON, nullable=False)  # answer payload tagged by question_type

    quiz = relationship("Quiz", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id}, type={self.question_type})>"
