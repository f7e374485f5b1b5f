"""ftpsync - report real differences between a local folder and its FTP/SFTP copy"""

__version__ = "1.0.0"
