from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db import Base


class TimestampMixin:
	"""Reusable timestamp columns for created/updated tracking."""

	created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
	updated_at = Column(
		DateTime(timezone=True),
		nullable=False,
		server_default=func.now(),
		onupdate=func.now(),
	)


class User(TimestampMixin, Base):
	"""Subscriber identified by a lowercase email address."""

	__tablename__ = "users"

	id = Column(Integer, primary_key=True, index=True)
	email = Column(String(320), unique=True, nullable=False, index=True)
	language = Column(String(16), nullable=True)
	stripe_customer_id = Column(String(255), nullable=True, index=True)

	subscriptions = relationship(
		"Subscription",
		back_populates="user",
		cascade="all, delete-orphan",
	)

	def __repr__(self) -> str:  # pragma: no cover - debug helper
		return f"<User id={self.id} email={self.email!r}>"


class Subscription(TimestampMixin, Base):
	"""Local mirror of a Stripe subscription."""

	__tablename__ = "subscriptions"

	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
	stripe_subscription_id = Column(String(255), nullable=False, unique=True)
	plan = Column(String(32), nullable=False, default="free")
	status = Column(String(50), nullable=False, default="incomplete")
	current_period_end = Column(DateTime(timezone=True), nullable=True)

	user = relationship("User", back_populates="subscriptions")

	def __repr__(self) -> str:  # pragma: no cover - debug helper
		return (
			f"<Subscription stripe_id={self.stripe_subscription_id!r} plan={self.plan!r} "
			f"status={self.status!r} period_end={self.current_period_end}>"
		)


class ProcessedEvent(Base):
	"""Stripe event ids already handled; only used to suppress redelivery."""

	__tablename__ = "processed_events"

	event_id = Column(String(255), primary_key=True)
	event_type = Column(String(100), nullable=False)
	received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

	def __repr__(self) -> str:  # pragma: no cover - debug helper
		return f"<ProcessedEvent {self.event_id!r} type={self.event_type!r}>"
