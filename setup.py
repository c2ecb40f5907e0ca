from setuptools import setup, find_packages

setup(
	name = "customersync",
	version = "0.0.1",
	description = "Mirrors customer record changes into rows of a Google Sheet",
	packages = find_packages(include=["common", "common.*", "customersync", "customersync.*"]),
	install_requires = [
		"argh==0.28.1",
		"flask",
		"gevent",
		"monotonic",
		"prometheus-client",
		"requests",
	],
	extras_require = {
		"test": [
			"pytest",
		],
	},
)
