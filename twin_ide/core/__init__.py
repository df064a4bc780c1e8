"""Protocol core, shared models and services of the IDE."""
