"""Processing specifications, the image manipulator and helpers that build storage backends."""