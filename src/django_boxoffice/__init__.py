"""Concert ticket sales for Django."""
