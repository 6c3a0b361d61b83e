"""notewell — hybrid lexical/semantic search over local notes."""
