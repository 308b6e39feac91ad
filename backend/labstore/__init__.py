"""labstore - FHIR laboratory resource store."""
