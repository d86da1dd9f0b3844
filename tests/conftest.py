pytest_plugins = [
    "tests.fixtures.aws_fixtures",
    "tests.fixtures.gateway_fixtures",
]
