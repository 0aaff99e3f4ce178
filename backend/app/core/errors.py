"""
Fehlerarten des Compliance-Moduls.

Validierungs- und NotFound-Fehler sind getrennte Klassen, damit die
HTTP-Schicht sie auf 400 bzw. 404 abbilden kann.
"""


class ComplianceError(Exception):
    """Basisklasse aller fachlichen Fehler."""


class ComplianceValidationError(ComplianceError):
    """Ungültige Eingabe – es wurde nichts geschrieben."""


class NotFoundError(ComplianceError):
    """Angefragter Datensatz existiert (für diesen Tenant) nicht."""


class BlobStoreError(ComplianceError):
    """Lesen/Schreiben im Blob-Speicher fehlgeschlagen."""
