"""ABO/Rh compatibility lookups."""

BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')

# Donor blood type -> recipient blood types that donor may give to
DONOR_COMPATIBILITY = {
    'O-': ('O-', 'O+', 'A-', 'A+', 'B-', 'B+', 'AB-', 'AB+'),
    'O+': ('O+', 'A+', 'B+', 'AB+'),
    'A-': ('A-', 'A+', 'AB-', 'AB+'),
    'A+': ('A+', 'AB+'),
    'B-': ('B-', 'B+', 'AB-', 'AB+'),
    'B+': ('B+', 'AB+'),
    'AB-': ('AB-', 'AB+'),
    'AB+': ('AB+',),
}

_ABO_GROUPS = ('A', 'B', 'AB', 'O')


def normalize_blood_type(raw):
    """Canonical form of a blood type, or None when it is not one of the eight.

    Query strings decode a literal ``+`` to a space, so ``"AB "`` reads as AB+.
    """
    if raw is None:
        return None
    value = str(raw).strip().upper()
    if value in _ABO_GROUPS and str(raw).rstrip() != str(raw):
        value += '+'
    value = value.replace('−', '-')
    return value if value in BLOOD_TYPES else None


def compatible_recipient_types(donor_blood_type):
    return DONOR_COMPATIBILITY.get(donor_blood_type, ())


def compatible_donor_types(recipient_blood_type):
    return tuple(
        donor for donor in BLOOD_TYPES
        if recipient_blood_type in DONOR_COMPATIBILITY[donor]
    )
