pytest_plugins = ["dynamigrate.testing.fixtures"]
