from sqlalchemy import Column, Integer, String, Boolean, Text, ForeignKey, DateTime, text, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    upc_code = Column(String(14), nullable=False, unique=True, index=True)
    ingredient_image_path = Column(String(512), nullable=True)
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # Relationships
    ingredients = relationship(
        "Ingredient",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Ingredient.id",
    )


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'))

    # Relationships
    product = relationship("Product", back_populates="ingredients")
    allergens = relationship(
        "Allergen",
        back_populates="ingredient",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Allergen.id",
    )


class Allergen(Base):
    __tablename__ = "allergens"

    id = Column(Integer, primary_key=True, index=True)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)

    # Relationships
    ingredient = relationship("Ingredient", back_populates="allergens")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=False, index=False, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'))

    # Relationships
    allergies = relationship(
        "UserAllergy",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="UserAllergy.id",
    )


class UserAllergy(Base):
    __tablename__ = "user_allergies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    allergy_text = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="allergies")


class ScheduledJob(Base):
    """Lock row and bookkeeping for jobs that must run on one node at a time."""
    __tablename__ = "scheduled_jobs"

    name = Column(String(100), primary_key=True)
    locked_by = Column(String(255), nullable=True)
    locked_at = Column(DateTime, nullable=True)
    last_run_at = Column(DateTime, nullable=True)
