"""Transform and load the CNPJ dump: lookups, enrichment, writer sinks."""
