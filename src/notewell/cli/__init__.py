"""notewell command-line interface."""
