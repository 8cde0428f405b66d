"""Inventory models (single-location ledger).

Stock counters live on `catalog.ProductSize`; this app records who holds
a claim on them (`StockReservation`) and why they moved (`StockMovement`).
"""

from common.choices import MovementType, ReservationState
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class StockMovement(TimeStampedModel):
    TYPE_INBOUND = MovementType.INBOUND
    TYPE_OUTBOUND = MovementType.OUTBOUND
    TYPE_ADJUST = MovementType.ADJUST
    TYPE_CHOICES = MovementType.choices

    size = models.ForeignKey("catalog.ProductSize", on_delete=models.CASCADE, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    quantity = models.IntegerField()  # signed: +inbound, -outbound
    quantity_after = models.IntegerField()
    reason = models.CharField(max_length=200, blank=True)
    reference = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.CheckConstraint(name="movement_non_zero", condition=~models.Q(quantity=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.movement_type} {self.quantity} for {self.size_id}"


class StockReservation(TimeStampedModel):
    """Reservation token: `quantity` units of a size claimed by one cart line.

    Only `active` reservations count toward `ProductSize.reserved_quantity`.
    `released` and `converted` are terminal.
    """

    STATE_ACTIVE = ReservationState.ACTIVE
    STATE_RELEASED = ReservationState.RELEASED
    STATE_CONVERTED = ReservationState.CONVERTED
    STATE_CHOICES = ReservationState.choices

    size = models.ForeignKey("catalog.ProductSize", on_delete=models.CASCADE, related_name="reservations")
    quantity = models.IntegerField()
    reference = models.CharField(max_length=120)
    state = models.CharField(max_length=16, choices=STATE_CHOICES, default=STATE_ACTIVE)

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.CheckConstraint(name="reservation_positive_qty", condition=models.Q(quantity__gt=0)),
        ]
        indexes = [
            models.Index(fields=["size", "state"], name="reservation_size_state_idx"),
            models.Index(fields=["reference"], name="reservation_reference_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Reservation<{self.size_id}> qty={self.quantity} state={self.state}"

    @property
    def is_active(self) -> bool:
        return self.state == self.STATE_ACTIVE
