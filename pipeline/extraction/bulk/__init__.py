"""Bulk download of the Receita Federal CNPJ open data dump."""
