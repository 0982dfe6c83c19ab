"""owner-reports — Turn property-management exports into owner report decks."""

__version__ = "0.3.0"

REQUIRED_DELINQUENCY_TOKENS: tuple[str, ...] = (
    "DELINPER30",
    "DELINUNIT30",
    "DELINDOL30",
    "DELINPER60",
    "DELINUNIT60",
    "DELINDOL60",
    "DELINPER61",
    "DELINUNIT61",
    "DELINDOL61",
)
