"""Cross-cutting helpers shared by the API layer."""
