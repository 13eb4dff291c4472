"""Framework-agnostic building blocks shared by feature modules."""
