"""
Database Models for MealSync
SQLAlchemy ORM models for the source-of-truth store
"""

import json
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DailyMealsRecord(Base):
    """One row per (user, date) holding that day's meal list as JSON."""

    __tablename__ = 'daily_meals'

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False)
    meal_date = Column(String(10), nullable=False)
    _meals = Column('meals', Text, default='[]')
    is_locked = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_daily_meals_user_date', 'user_id', 'meal_date', unique=True),
    )

    @property
    def meals(self) -> List[Dict[str, Any]]:
        return json.loads(self._meals) if self._meals else []

    @meals.setter
    def meals(self, value: List[Dict[str, Any]]):
        self._meals = json.dumps(value or [], ensure_ascii=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'meal_date': self.meal_date,
            'meals': self.meals,
            'is_locked': bool(self.is_locked),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class ProfileRecord(Base):
    """Onboarding and nutrition-target profile, keyed by user id."""

    __tablename__ = 'profiles'

    id = Column(String(64), primary_key=True)
    name = Column(String(128))
    gender = Column(String(16))
    age = Column(Integer)
    height_cm = Column(Float)
    weight_kg = Column(Float)
    goal = Column(String(32))
    activity_level = Column(String(32))
    diet_type = Column(String(32))
    _allergies = Column('allergies', Text, default='[]')
    _disliked_foods = Column('disliked_foods', Text, default='[]')
    daily_calories_target = Column(Integer)
    daily_protein_target = Column(Integer)
    plan = Column(String(16), default='free')
    onboarding_completed = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def allergies(self) -> List[str]:
        return json.loads(self._allergies) if self._allergies else []

    @allergies.setter
    def allergies(self, value: List[str]):
        self._allergies = json.dumps(value or [], ensure_ascii=False)

    @property
    def disliked_foods(self) -> List[str]:
        return json.loads(self._disliked_foods) if self._disliked_foods else []

    @disliked_foods.setter
    def disliked_foods(self, value: List[str]):
        self._disliked_foods = json.dumps(value or [], ensure_ascii=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'gender': self.gender,
            'age': self.age,
            'height_cm': self.height_cm,
            'weight_kg': self.weight_kg,
            'goal': self.goal,
            'activity_level': self.activity_level,
            'diet_type': self.diet_type,
            'allergies': self.allergies,
            'disliked_foods': self.disliked_foods,
            'daily_calories_target': self.daily_calories_target,
            'daily_protein_target': self.daily_protein_target,
            'plan': self.plan or 'free',
            'onboarding_completed': bool(self.onboarding_completed),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
