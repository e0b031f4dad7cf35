def build_filters(model, equals=None, ranges=None):
    """
    Turn optional filters into a list of predicates to AND together.

    ``equals`` maps column name to value; ``ranges`` maps column name to a
    ``(low, high)`` pair, either end optional. Filters whose value is None add
    no predicate.

        conditions = build_filters(AttendanceRecord,
                                   equals={"class_id": class_id},
                                   ranges={"date": (date_from, date_to)})
        query = query.filter(*conditions)
    """
    conditions = []

    for name, value in (equals or {}).items():
        if value is not None:
            conditions.append(getattr(model, name) == value)

    for name, (low, high) in (ranges or {}).items():
        column = getattr(model, name)
        if low is not None:
            conditions.append(column >= low)
        if high is not None:
            conditions.append(column <= high)

    return conditions
