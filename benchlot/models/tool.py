"""Tool listing model.

Only the columns the checkout path needs: who sells it and for how much.
"""

import uuid

from benchlot.extensions import db


class Tool(db.Model):
    __tablename__ = "tools"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    seller_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    is_sold = db.Column(db.Boolean, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    seller = db.relationship("User", back_populates="tools")

    def __repr__(self):
        return f"<Tool {self.name}>"
