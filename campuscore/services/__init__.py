"""Grade, access-scope, deletion and record services."""
