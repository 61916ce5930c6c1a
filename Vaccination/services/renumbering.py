"""
Two-pass renumbering under a composite unique constraint.

Rows cannot swap numbers in a single UPDATE without tripping the unique index,
so each row is first parked on a temporary number above every value in play
and only then moved to its final number.
"""
import logging

logger = logging.getLogger(__name__)


def renumber_in_two_passes(model, field, rows, final_values, temp_base, skip_unchanged=False):
    """
    Move ``rows`` (model instances, already in their final order) to
    ``final_values`` on ``field``.

    ``temp_base`` must be strictly greater than every value currently held by
    any row that shares the unique key, final values included. With
    ``skip_unchanged`` rows that already hold their final value are not
    touched at all.

    Returns the number of rows whose value changed.
    """
    rows = list(rows)
    final_values = list(final_values)
    if len(rows) != len(final_values):
        raise ValueError("rows and final_values must have the same length")

    if skip_unchanged:
        pending = [
            (row, value) for row, value in zip(rows, final_values)
            if getattr(row, field) != value
        ]
    else:
        pending = list(zip(rows, final_values))

    if not pending:
        return 0

    # Pass 1: park every moving row on a unique temporary number
    for index, (row, _value) in enumerate(pending):
        model.objects.filter(pk=row.pk).update(**{field: temp_base + index})

    # Pass 2: settle on the final numbers
    changed = 0
    for row, value in pending:
        model.objects.filter(pk=row.pk).update(**{field: value})
        if getattr(row, field) != value:
            changed += 1
        setattr(row, field, value)

    logger.debug(f"Renumbered {changed} {model.__name__} row(s) on '{field}' (temp base {temp_base})")
    return changed
