from listentranscriber.app import main

main()
