# mirror <sysexits.h>
EXIT_OK = 0  # Normal success
EXIT_GENERIC = 1  # At least one case failed verification
EXIT_DATAERR = 65  # Case file was invalid (bad JSON, schema violation)
EXIT_NOINPUT = 66  # Case file not found
EXIT_CONFIG = 78  # Transform missing or not importable
