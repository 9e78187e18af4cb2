"""
SQLAlchemy ORM Models for the EcoLens service
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship
from ecolens.db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    firebase_uid = Column(String(128), unique=True)
    green_coins = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    detections = relationship("Detection", back_populates="user")
    transactions = relationship("Transaction", back_populates="user")
    stats = relationship("Stats", back_populates="user", uselist=False)
    achievements = relationship("Achievement", back_populates="user")


class Detection(Base):
    __tablename__ = "detections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    image_url = Column(Text)
    image_hash = Column(String(64))
    detected_objects = Column(JSON, nullable=False, default=list)
    confidence_score = Column(Integer)
    coins_earned = Column(Integer, nullable=False, default=0)
    is_verified = Column(Boolean, default=False)
    verification_status = Column(String(20), nullable=False, default="pending")  # pending, verified, rejected
    verification_attempts = Column(Integer, nullable=False, default=0)
    verification_image_hash = Column(String(64))
    fraud_score = Column(Integer, nullable=False, default=0)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    verified_at = Column(DateTime)

    __table_args__ = (
        Index('idx_detection_user_created', 'user_id', 'created_at'),
        Index('idx_detection_image_hash', 'image_hash'),
    )

    # Relationships
    user = relationship("User", back_populates="detections")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String(10), nullable=False)  # earn, spend
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    detection_id = Column(Integer, ForeignKey("detections.id"))
    qr_code = Column(String(64))
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_transaction_user_created', 'user_id', 'created_at'),
    )

    # Relationships
    user = relationship("User", back_populates="transactions")


class Stats(Base):
    __tablename__ = "stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    total_detections = Column(Integer, nullable=False, default=0)
    total_coins_earned = Column(Integer, nullable=False, default=0)
    total_coins_spent = Column(Integer, nullable=False, default=0)
    streak_days = Column(Integer, nullable=False, default=0)
    plastic_items_detected = Column(Integer, nullable=False, default=0)
    paper_items_detected = Column(Integer, nullable=False, default=0)
    glass_items_detected = Column(Integer, nullable=False, default=0)
    metal_items_detected = Column(Integer, nullable=False, default=0)
    favorite_material = Column(String(20))
    last_detection_at = Column(DateTime)

    # Relationships
    user = relationship("User", back_populates="stats")


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    achievement_type = Column(String(50), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    icon_type = Column(String(30))
    unlocked_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="achievements")


class PersonalGoal(Base):
    __tablename__ = "personal_goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    goal_type = Column(String(20), nullable=False)  # daily, weekly, monthly
    target_type = Column(String(20), nullable=False)  # detections, coins, items
    target_value = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    current_progress = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    start_date = Column(DateTime, default=datetime.utcnow)
    end_date = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class EnvironmentalImpact(Base):
    __tablename__ = "environmental_impact"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    total_co2_saved = Column(Float, nullable=False, default=0.0)  # kg
    total_water_saved = Column(Float, nullable=False, default=0.0)  # litres
    total_energy_saved = Column(Float, nullable=False, default=0.0)  # kWh
    trees_saved = Column(Float, nullable=False, default=0.0)
    landfill_diverted = Column(Float, nullable=False, default=0.0)  # kg
    recycling_score = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow)


class UserReminder(Base):
    __tablename__ = "user_reminders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reminder_type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    schedule_time = Column(String(5))  # HH:MM
    is_active = Column(Boolean, default=True)
    next_scheduled = Column(DateTime)
    last_sent = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class HabitAnalytics(Base):
    __tablename__ = "habit_analytics"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(DateTime, nullable=False)
    detections_count = Column(Integer, nullable=False, default=0)
    coins_earned = Column(Integer, nullable=False, default=0)
    time_spent_minutes = Column(Integer, nullable=False, default=0)
    favorite_time = Column(String(20))  # morning, afternoon, evening, night
    item_types = Column(JSON)
    mood_rating = Column(Integer)
    notes = Column(Text)

    __table_args__ = (
        Index('idx_habit_user_date', 'user_id', 'date'),
    )
