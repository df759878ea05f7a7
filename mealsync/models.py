"""
Domain models for MealSync

Plain dataclasses shared by every tier. Each has ``to_dict``/``from_dict``
so it can travel through JSON envelopes (remote cache, local store, sync
queue) unchanged.
"""

import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACKS = "snacks"


DEFAULT_MEAL_TIMES = {
    MealType.BREAKFAST: "08:00",
    MealType.LUNCH: "12:30",
    MealType.DINNER: "19:00",
    MealType.SNACKS: "15:00",
}


class SyncAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    CLEAR = "clear"


def validate_date(value: str) -> str:
    """Check a YYYY-MM-DD date string and return it."""
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    datetime.strptime(value, "%Y-%m-%d")
    return value


def generate_meal_id() -> str:
    """Time + random identifier, unique even within one millisecond."""
    return f"meal_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def utc_now_iso() -> str:
    return datetime.utcnow().isoformat()


@dataclass
class MealItem:
    """One logged food."""
    name: str
    meal_type: MealType
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    time: str = "12:00"
    id: str = field(default_factory=generate_meal_id)
    added_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self):
        self.meal_type = MealType(self.meal_type)
        for name in ("calories", "protein", "carbs", "fat"):
            value = getattr(self, name)
            if value is None or value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if not _TIME_PATTERN.match(self.time or ""):
            raise ValueError(f"Invalid meal time '{self.time}', expected HH:MM")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meal_type": self.meal_type.value,
            "name": self.name,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "time": self.time,
            "added_at": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MealItem":
        return cls(
            id=data.get("id") or generate_meal_id(),
            meal_type=data.get("meal_type", MealType.SNACKS),
            name=data.get("name", ""),
            calories=data.get("calories", 0) or 0,
            protein=data.get("protein", 0) or 0,
            carbs=data.get("carbs", 0) or 0,
            fat=data.get("fat", 0) or 0,
            time=data.get("time") or "12:00",
            added_at=data.get("added_at") or utc_now_iso(),
        )


def meals_to_dicts(meals: List[MealItem]) -> List[Dict[str, Any]]:
    return [m.to_dict() for m in meals]


def meals_from_dicts(data: Optional[List[Dict[str, Any]]]) -> List[MealItem]:
    return [MealItem.from_dict(d) for d in (data or [])]


@dataclass
class DailyMeals:
    """All meals for one user on one date."""
    user_id: str
    meal_date: str
    meals: List[MealItem] = field(default_factory=list)
    is_locked: bool = False
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "meal_date": self.meal_date,
            "meals": meals_to_dicts(self.meals),
            "is_locked": self.is_locked,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyMeals":
        return cls(
            id=data.get("id"),
            user_id=data["user_id"],
            meal_date=data["meal_date"],
            meals=meals_from_dicts(data.get("meals")),
            is_locked=bool(data.get("is_locked", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class NutritionTotals:
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    @classmethod
    def from_meals(cls, meals: List[MealItem]) -> "NutritionTotals":
        totals = cls()
        for meal in meals:
            totals.calories += meal.calories
            totals.protein += meal.protein
            totals.carbs += meal.carbs
            totals.fat += meal.fat
        return totals

    def to_dict(self) -> Dict[str, float]:
        return {
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }


@dataclass
class SyncQueueItem:
    """A deferred mutation carrying the full post-mutation meal list."""
    action: SyncAction
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: f"sync_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}")
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def __post_init__(self):
        self.action = SyncAction(self.action)

    @property
    def user_id(self) -> str:
        return self.payload.get("user_id", "")

    @property
    def date(self) -> str:
        return self.payload.get("date", "")

    @property
    def meals(self) -> List[MealItem]:
        return meals_from_dicts(self.payload.get("meals"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncQueueItem":
        return cls(
            id=data["id"],
            action=data["action"],
            payload=data.get("payload") or {},
            timestamp=int(data.get("timestamp", 0)),
        )


PROFILE_UPDATE_FIELDS = (
    "name",
    "gender",
    "age",
    "height_cm",
    "weight_kg",
    "goal",
    "activity_level",
    "diet_type",
    "allergies",
    "disliked_foods",
    "daily_calories_target",
    "daily_protein_target",
    "plan",
)


@dataclass
class UserProfile:
    """Onboarding and nutrition-target profile."""
    id: str
    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    goal: Optional[str] = None
    activity_level: Optional[str] = None
    diet_type: Optional[str] = None
    allergies: List[str] = field(default_factory=list)
    disliked_foods: List[str] = field(default_factory=list)
    daily_calories_target: Optional[int] = None
    daily_protein_target: Optional[int] = None
    plan: str = "free"
    onboarding_completed: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "gender": self.gender,
            "age": self.age,
            "height_cm": self.height_cm,
            "weight_kg": self.weight_kg,
            "goal": self.goal,
            "activity_level": self.activity_level,
            "diet_type": self.diet_type,
            "allergies": list(self.allergies),
            "disliked_foods": list(self.disliked_foods),
            "daily_calories_target": self.daily_calories_target,
            "daily_protein_target": self.daily_protein_target,
            "plan": self.plan,
            "onboarding_completed": self.onboarding_completed,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=data["id"],
            name=data.get("name"),
            gender=data.get("gender"),
            age=data.get("age"),
            height_cm=data.get("height_cm"),
            weight_kg=data.get("weight_kg"),
            goal=data.get("goal"),
            activity_level=data.get("activity_level"),
            diet_type=data.get("diet_type"),
            allergies=list(data.get("allergies") or []),
            disliked_foods=list(data.get("disliked_foods") or []),
            daily_calories_target=data.get("daily_calories_target"),
            daily_protein_target=data.get("daily_protein_target"),
            plan=data.get("plan") or "free",
            onboarding_completed=bool(data.get("onboarding_completed", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
