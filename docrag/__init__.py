"""docrag — document indexing, retrieval and conversational memory."""
