"""notewell retrieval — date ranges, hybrid retrieval, context assembly, answers."""
