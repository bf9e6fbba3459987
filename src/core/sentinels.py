class UnsetType:
    """Marks a patch field that was left out, as opposed to one cleared to None."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = UnsetType()
