from cafeteria.models.establishment import Establishment
from cafeteria.models.person import Person, PersonType
from cafeteria.models.meal_plan import MealPlan, MealConsumption, Meal
from cafeteria.models.ticket import Ticket, TicketBatch
from cafeteria.models.user import User, UserRole

__all__ = [
    "Establishment",
    "Person",
    "PersonType",
    "MealPlan",
    "MealConsumption",
    "Meal",
    "Ticket",
    "TicketBatch",
    "User",
    "UserRole",
]
