"""Round selection and countdown phases."""
