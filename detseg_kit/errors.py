class InvalidInput(ValueError):
    """
    Raised when a caller hands the decoder or the counter a malformed buffer,
    e.g. a record buffer whose length is not a multiple of 7 or a mask that is
    not a single-channel 8-bit image.
    """
