"""Certificate issuance for eligible enrollments."""
