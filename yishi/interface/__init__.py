"""Console front end for playing and inspecting YISHI content."""
