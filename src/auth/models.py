class User:
    def __init__(
        self,
        id: int,
        name: str,
        email: str,
        password_hash: str,
        role: str = "user",
        created_at: str = None,
        updated_at: str = None,
        last_signed_in: str = None,
    ):
        self.id = id
        self.name = name
        self.email = email
        self.password_hash = password_hash
        self.role = role  # 'user' or 'admin'
        self.created_at = created_at
        self.updated_at = updated_at
        self.last_signed_in = last_signed_in

    @classmethod
    def from_row(cls, row):
        return cls(**dict(row))

    def to_dict(self) -> dict:
        """Public representation, never includes the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": self.created_at,
            "last_signed_in": self.last_signed_in,
        }

    def __repr__(self):
        return f"User({self.id}, {self.email})"
