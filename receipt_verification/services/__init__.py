"""Receipt processing services: OCR, field parsing and the decision engine."""
