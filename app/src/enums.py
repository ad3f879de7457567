from enum import IntEnum


class AppID(IntEnum):
    PUBLIC = 1
    OPERATOR = 2


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class Day(IntEnum):
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


class FrequencyType(IntEnum):
    DAILY = 1
    WEEKLY = 2
    SPECIFIC_DAYS = 3


class TripStatus(IntEnum):
    SCHEDULED = 1
    BOARDING = 2
    DEPARTED = 3
    COMPLETED = 4
    CANCELLED = 5


class TripType(IntEnum):
    ONE_WAY = 1
    RETURN = 2


class Leg(IntEnum):
    OUTBOUND = 1
    RETURN = 2


class BookingStatus(IntEnum):
    RESERVED = 1
    CONFIRMED = 2
    CANCELLED = 3


class PaymentMethod(IntEnum):
    CARD = 1
    MOBILE_MONEY = 2
    ONLINE_CHECKOUT = 3
    CASH = 4


class LoyaltyTier(IntEnum):
    SILVER = 1
    GOLD = 2
    PLATINUM = 3


class TransactionType(IntEnum):
    EARN = 1
    REDEEM = 2
    ADJUST = 3
    EXPIRE = 4
