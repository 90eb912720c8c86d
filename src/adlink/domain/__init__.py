"""Domain value objects for ADLink."""
