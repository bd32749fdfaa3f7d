"""Config Vault Meta information.
   Config Vault stores sensitive configuration data encrypted at rest.
"""
__title__ = 'config_vault'
__description__ = (
   'Config Vault stores sensitive key-value configuration data, '
   'grouped into domains and encrypted at rest.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/config-vault'
