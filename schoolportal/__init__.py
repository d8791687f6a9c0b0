# Use PyMySQL as the MySQLdb driver for the production MySQL backend
import pymysql

pymysql.install_as_MySQLdb()
