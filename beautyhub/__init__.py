"""BeautyHub marketplace backend."""
