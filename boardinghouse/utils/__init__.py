from .money import (
    Period,
    as_date,
    as_datetime,
    clamp_due_day,
    current_time,
    days_until,
    month_bounds,
    parse_month,
    split_evenly,
    to_money,
)
