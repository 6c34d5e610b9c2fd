#
# Version information for coral_abc
#
# See: https://packaging.python.org/guides/single-sourcing-package-version/
#
VERSION_INT = 0, 1, 0
VERSION = '.'.join([str(x) for x in VERSION_INT])
